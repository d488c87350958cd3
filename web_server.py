#!/usr/bin/env python3
"""
Web server for Kontextai - FLUX.1 Kontext image generation and prompt optimization.
Serves the JSON API defined in kontextai.web.
"""

from kontextai.config import load_settings
from kontextai.logging_config import configure_logging
from kontextai.registry import MODELS
from kontextai.web import create_app

settings = load_settings()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == '__main__':
    print("🎨 Starting Kontextai Web Server...")
    print(f"🔧 Available models: {list(MODELS)}")
    print(f"🤖 LLM configured: {settings.llm_configured} ({settings.llm.model})")
    print(f"🖼️ Image service configured: {settings.fal_configured}")
    print(f"🌐 API will be available at: http://localhost:{settings.port}")
    print("\n" + "="*50)

    app.run(
        host=settings.host,
        port=settings.port,
        debug=settings.debug,
        threaded=True
    )
