"""
Web API for Kontextai - FLUX.1 Kontext generation and prompt optimization.
Every endpoint answers JSON; failures are always {"success": false, "error": ...}.
"""

import asyncio
import logging
from typing import Optional, Type, TypeVar

import pydantic
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from kontextai import __version__
from kontextai.config import Settings
from kontextai.core import resolve_generation_request
from kontextai.errors import (
    KontextError,
    ValidationError,
    describe,
    status_code_for,
    user_message_for,
)
from kontextai.models import GenerationRequest, OptimizeRequest, PresetPromptRequest
from kontextai.prompts.presets import preset_options
from kontextai.providers.llm_provider import text_message
from kontextai.registry import MODELS
from kontextai.services import Services

logger = logging.getLogger(__name__)

UNLOCK_STORAGE_KEY = 'flux-kontext-unlocked-models'

M = TypeVar('M', bound=pydantic.BaseModel)

api = Blueprint('kontextai', __name__)


def _services() -> Services:
    return current_app.extensions['kontextai']


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        raise ValidationError('Request data must not be empty')
    return data


def _parse(model_cls: Type[M], data: dict) -> M:
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        error = e.errors()[0]
        field = '.'.join(str(part) for part in error.get('loc', ())) or 'request'
        message = error.get('msg', 'invalid value').removeprefix('Value error, ')
        if field == 'request':
            raise ValidationError(message) from e
        raise ValidationError(f'Invalid {field}: {message}') from e


HTTP_ERROR_MESSAGES = {
    404: 'Endpoint not found',
    405: 'Method not allowed',
    413: 'Request body is too large',
}


def _http_error_response(error: HTTPException):
    message = HTTP_ERROR_MESSAGES.get(error.code, error.description or 'Request failed')
    return jsonify({'success': False, 'error': message}), error.code


def _error_response(exc: BaseException, context: str):
    if isinstance(exc, HTTPException):
        return _http_error_response(exc)
    status = status_code_for(exc)
    if isinstance(exc, KontextError):
        log = logger.warning if status < 500 else logger.error
        log(f'{context} failed: {describe(exc)}')
    else:
        logger.exception(f'{context} failed with an unexpected error')
    return jsonify({'success': False, 'error': user_message_for(exc)}), status


def _run(coro):
    # Each request drives its own event loop; services hold no loop-bound state.
    return asyncio.run(coro)


@api.route('/health')
def health():
    """Liveness check"""
    return jsonify({'success': True, 'status': 'ok', 'version': __version__})


@api.route('/generate', methods=['GET'])
def generate_status():
    """Liveness check for the generation endpoint"""
    return jsonify({'message': 'FLUX.1 Kontext API service is running'}), 200


@api.route('/generate', methods=['POST'])
def generate():
    """Generate or edit images with a FLUX.1 Kontext model"""
    try:
        data = _json_body()
        if not str(data.get('prompt') or '').strip():
            raise ValidationError('Prompt must not be empty')
        generation_request = _parse(GenerationRequest, data)
        services = _services()

        async def _generate():
            resolved = await resolve_generation_request(
                generation_request, services.fetcher
            )
            return await services.generator.generate(resolved)

        result = _run(_generate())
        body = result.model_dump(by_alias=True, exclude_none=True)
        if result.success:
            return jsonify(body)
        return jsonify({'success': False, 'error': result.error}), 500
    except Exception as e:
        return _error_response(e, 'Image generation')


@api.route('/optimize-prompt', methods=['POST'])
def optimize_prompt():
    """Optimize a prompt, analyzing reference images when given"""
    try:
        optimize_request = _parse(OptimizeRequest, _json_body())
        result = _run(_services().optimizer.optimize(optimize_request))
        if not result.success:
            return jsonify({'success': False, 'error': result.error}), 500
        return jsonify(result.model_dump(by_alias=True, exclude_none=True))
    except Exception as e:
        return _error_response(e, 'Prompt optimization')


@api.route('/generate-preset-prompt', methods=['POST'])
def generate_preset_prompt():
    """Expand a named preset into an edit instruction for one image"""
    try:
        preset_request = _parse(PresetPromptRequest, _json_body())
        result = _run(_services().optimizer.generate_preset_prompt(preset_request))
        if not result.success:
            return jsonify({'success': False, 'error': result.error}), 500
        return jsonify(result.model_dump(by_alias=True, exclude_none=True))
    except Exception as e:
        return _error_response(e, 'Preset prompt generation')


@api.route('/upload', methods=['POST'])
def upload():
    """Upload a reference image to storage and return its public URL"""
    try:
        file = request.files.get('file')
        if file is None:
            raise ValidationError('No file found in the request')
        data = file.read()
        filename = secure_filename(file.filename or '') or 'upload'
        result = _run(
            _services().generator.upload(data, filename, file.mimetype)
        )
        if not result.success:
            return jsonify({'success': False, 'error': result.error}), 500
        return jsonify(result.model_dump(by_alias=True, exclude_none=True))
    except ValidationError as e:
        logger.info(f'Upload rejected: {e.message}')
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        return _error_response(e, 'File upload')


@api.route('/models')
def list_models():
    """List the supported models"""
    models = [
        {
            'id': spec.id,
            'name': spec.name,
            'description': spec.description,
            'kind': spec.kind,
            'multiImage': spec.multi_image,
            'safetyLevels': list(spec.safety_levels),
        }
        for spec in MODELS.values()
    ]
    return jsonify({'success': True, 'models': models})


@api.route('/presets')
def list_presets():
    """List the editing presets"""
    return jsonify({'success': True, 'presets': preset_options()})


@api.route('/check-config')
def check_config():
    """Report which credentials are configured, never their values"""
    try:
        settings = _services().settings
        config = {
            'hasLlmApiKey': bool(settings.llm.api_key),
            'llmApiKeyLength': len(settings.llm.api_key or ''),
            'llmBaseUrl': settings.llm.base_url or 'not set',
            'llmModel': settings.llm.model,
            'llmConfigured': settings.llm_configured,
            'hasFalKey': bool(settings.fal.api_key),
            'falKeyLength': len(settings.fal.api_key or ''),
            'falConfigured': settings.fal_configured,
        }
        logger.info(f'Configuration check: {config}')
        return jsonify(
            {'success': True, 'config': config, 'message': 'Configuration check complete'}
        )
    except Exception as e:
        return _error_response(e, 'Configuration check')


@api.route('/test-llm', methods=['GET'])
def test_llm():
    """Round-trip a trivial prompt through the LLM"""
    try:
        llm = _services().llm
        if not llm.configured:
            return jsonify({'success': False, 'error': 'AI service is not configured'})
        report = _run(llm.health_check())
        return jsonify({'success': True, 'result': report, 'message': 'LLM test complete'})
    except Exception as e:
        return _error_response(e, 'LLM test')


@api.route('/test-llm', methods=['POST'])
def test_llm_prompt():
    """Send a caller-supplied prompt through the LLM"""
    try:
        prompt = str(_json_body().get('prompt') or '').strip()
        if not prompt:
            raise ValidationError('Please provide a test prompt')
        reply = _run(_services().llm.chat([text_message('user', prompt)], temperature=0.7))
        return jsonify({'success': True, 'prompt': prompt, 'reply': reply})
    except Exception as e:
        return _error_response(e, 'LLM test')


@api.route('/unlock-status', methods=['GET'])
def unlock_status():
    """Model unlock state lives in the browser; this only documents it"""
    return jsonify({
        'success': True,
        'message': 'Unlock state is managed by client-side local storage',
        'storageKey': UNLOCK_STORAGE_KEY,
        'instructions': {
            'check': 'Inspect localStorage in the browser developer tools',
            'reset': 'Long-press the model selector title for 10 seconds to reset',
            'manual': f'Run localStorage.removeItem("{UNLOCK_STORAGE_KEY}") in the console',
        },
    })


@api.route('/unlock-status', methods=['DELETE'])
def clear_unlock_status():
    """Clearing happens in the browser; nothing changes on the server"""
    return jsonify({
        'success': True,
        'message': 'Please clear the unlock state on the client',
        'instructions': [
            'Long-press the model selector title for 10 seconds',
            f'Run localStorage.removeItem("{UNLOCK_STORAGE_KEY}") in the browser console',
            'Clear the browser data',
        ],
    })


def create_app(
    settings: Optional[Settings] = None, services: Optional[Services] = None
) -> Flask:
    services = services or Services.build(settings)
    app = Flask(__name__)
    CORS(app)
    app.config['MAX_CONTENT_LENGTH'] = services.settings.max_request_bytes
    app.extensions['kontextai'] = services

    app.register_blueprint(api)
    app.register_blueprint(api, url_prefix='/api', name='kontextai_api')

    app.register_error_handler(HTTPException, _http_error_response)

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({
            'success': False,
            'error': 'Internal server error'
        }), 500

    return app
