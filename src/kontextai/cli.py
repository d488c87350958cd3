import asyncio
import mimetypes
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typing_extensions import Annotated

from kontextai import __version__
from kontextai.config import load_settings
from kontextai.core import resolve_generation_request
from kontextai.errors import KontextError
from kontextai.logging_config import configure_logging
from kontextai.models import GenerationRequest, OptimizeRequest, PresetPromptRequest
from kontextai.optimizer import optimized_or_original
from kontextai.prompts.presets import list_presets
from kontextai.registry import MODELS, get_model
from kontextai.services import Services

app = typer.Typer(
    name="kontextai",
    help="🎨 Generate and edit images with FLUX.1 Kontext, with LLM prompt optimization.",
    add_completion=False,
)
console = Console()


def _services() -> Services:
    settings = load_settings()
    configure_logging(settings.log_level)
    return Services.build(settings)


def _fail(message: str):
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code=1)


def version_callback(value: bool):
    if value:
        console.print(f"Kontextai Version: [bold green]{__version__}[/bold green]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
):
    pass


@app.command()
def generate(
    prompt: Annotated[
        Optional[str],
        typer.Option(
            "--prompt",
            "-p",
            help="The text prompt. If not provided, you will be asked to enter it.",
            show_default=False,
        ),
    ] = None,
    model: Annotated[
        str, typer.Option("--model", "-m", help="Model id (see list-models).")
    ] = "max",
    image: Annotated[
        Optional[List[str]],
        typer.Option(
            "--image",
            "-i",
            help="Reference image URL. Repeat for max-multi.",
        ),
    ] = None,
    aspect_ratio: Annotated[
        str,
        typer.Option(
            "--aspect-ratio",
            help="Aspect ratio (e.g. '1:1', '16:9') or 'auto' to match the reference image.",
        ),
    ] = "auto",
    n: Annotated[
        int,
        typer.Option("--num-images", "-n", min=1, max=4, help="Number of images."),
    ] = 1,
    guidance_scale: Annotated[
        float, typer.Option("--guidance-scale", min=1, max=20)
    ] = 3.5,
    output_format: Annotated[
        str, typer.Option("--output-format", help="'jpeg' or 'png'.")
    ] = "jpeg",
    safety_tolerance: Annotated[
        Optional[str],
        typer.Option("--safety-tolerance", help="Safety level for the model family."),
    ] = None,
    seed: Annotated[Optional[int], typer.Option("--seed")] = None,
    optimize: Annotated[
        bool,
        typer.Option(
            "--optimize",
            help="Optimize the prompt with the LLM before generating.",
            is_flag=True,
        ),
    ] = False,
    steps: Annotated[
        Optional[int],
        typer.Option("--steps", help="[kontext-dev] Number of inference steps."),
    ] = None,
    resolution_mode: Annotated[
        Optional[str],
        typer.Option("--resolution-mode", help="[kontext-dev] Resolution mode."),
    ] = None,
    acceleration: Annotated[
        Optional[str],
        typer.Option("--acceleration", help="[kontext-dev] none, regular or high."),
    ] = None,
):
    if model not in MODELS:
        _fail(f"Unknown model '{model}'. Available models: {', '.join(MODELS)}")
    if prompt is None:
        prompt = typer.prompt("Please enter the prompt for image generation")
    images = [url for url in image or [] if url]
    services = _services()

    try:
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            image_urls=images or None,
            aspect_ratio=aspect_ratio,
            num_images=n,
            guidance_scale=guidance_scale,
            output_format=output_format,
            safety_tolerance=safety_tolerance,
            seed=seed,
            num_inference_steps=steps,
            resolution_mode=resolution_mode,
            acceleration=acceleration,
        )
    except ValueError as e:
        _fail(str(e))

    async def _generate():
        if optimize:
            result = await services.optimizer.optimize(
                OptimizeRequest(prompt=prompt, model=model, image_urls=images or None)
            )
            if not result.success:
                console.print(
                    f"[yellow]Prompt optimization failed ({result.error}); "
                    f"using the original prompt.[/yellow]"
                )
            request.prompt = optimized_or_original(result)
        resolved = await resolve_generation_request(request, services.fetcher)
        return await services.generator.generate(resolved)

    console.print(
        f"🖼️ Generating with model: [bold cyan]{get_model(model).name}[/bold cyan]"
    )
    with console.status("[spinner]Processing...", spinner="dots"):
        try:
            result = asyncio.run(_generate())
        except KontextError as e:
            _fail(e.message)
    if not result.success:
        _fail(result.error)
    console.print(f'📜 Prompt: "{request.prompt}"')
    for i, generated in enumerate(result.data.images):
        nsfw = (
            result.data.has_nsfw_concepts[i]
            if i < len(result.data.has_nsfw_concepts)
            else False
        )
        message = f"Image {i + 1}: [blue]{generated.url}[/blue]"
        if generated.width and generated.height:
            message += f" ({generated.width}×{generated.height})"
        if nsfw:
            message += " [yellow](flagged NSFW)[/yellow]"
        console.print(
            Panel(message, title="[bold green]Success ✨[/bold green]", expand=False)
        )
    console.print(f"Seed: [bold]{result.data.seed}[/bold]")


@app.command()
def submit(
    prompt: Annotated[str, typer.Argument(help="The text prompt.")],
    model: Annotated[
        str, typer.Option("--model", "-m", help="Model id (see list-models).")
    ] = "max",
    image: Annotated[
        Optional[List[str]],
        typer.Option("--image", "-i", help="Reference image URL. Repeat for max-multi."),
    ] = None,
    aspect_ratio: Annotated[str, typer.Option("--aspect-ratio")] = "auto",
    n: Annotated[
        int,
        typer.Option("--num-images", "-n", min=1, max=4, help="Number of images."),
    ] = 1,
    seed: Annotated[Optional[int], typer.Option("--seed")] = None,
):
    """Queue a generation and print its request id (check it with `status`)."""
    if model not in MODELS:
        _fail(f"Unknown model '{model}'. Available models: {', '.join(MODELS)}")
    services = _services()
    try:
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            image_urls=[url for url in image or [] if url] or None,
            aspect_ratio=aspect_ratio,
            num_images=n,
            seed=seed,
        )
    except ValueError as e:
        _fail(str(e))

    async def _submit():
        resolved = await resolve_generation_request(request, services.fetcher)
        return await services.generator.submit(resolved)

    try:
        request_id = asyncio.run(_submit())
    except KontextError as e:
        _fail(e.message)
    console.print(f"Queued as: [bold cyan]{request_id}[/bold cyan]")
    console.print(f"Check it with: kontextai status {request_id} --model {model}")


@app.command()
def optimize(
    prompt: Annotated[str, typer.Argument(help="The instruction to optimize.")],
    model: Annotated[str, typer.Option("--model", "-m")] = "max",
    image: Annotated[
        Optional[List[str]],
        typer.Option("--image", "-i", help="Reference image URL(s) to analyze."),
    ] = None,
):
    services = _services()
    request = OptimizeRequest(prompt=prompt, model=model, image_urls=image or None)
    with console.status("[spinner]Optimizing...", spinner="dots"):
        try:
            result = asyncio.run(services.optimizer.optimize(request))
        except KontextError as e:
            _fail(e.message)
    if not result.success:
        _fail(result.error)
    title = "Optimized prompt"
    if result.used_image_analysis:
        title += " (image analysis)"
    console.print(Panel(result.optimized_prompt, title=f"[bold green]{title}[/bold green]"))


@app.command()
def preset(
    name: Annotated[str, typer.Argument(help="Preset name (see list-presets).")],
    image: Annotated[str, typer.Option("--image", "-i", help="Reference image URL.")],
    subject: Annotated[
        Optional[str], typer.Option("--subject", "-s", help="Subject to focus on.")
    ] = None,
):
    services = _services()
    request = PresetPromptRequest(preset_name=name, image_url=image, subject=subject)
    with console.status("[spinner]Analyzing image...", spinner="dots"):
        try:
            result = asyncio.run(services.optimizer.generate_preset_prompt(request))
        except KontextError as e:
            _fail(e.message)
    if not result.success:
        _fail(result.error)
    console.print(Panel(result.prompt, title=f"[bold green]{result.preset}[/bold green]"))


@app.command()
def upload(
    path: Annotated[
        Path, typer.Argument(exists=True, dir_okay=False, help="Image file to upload.")
    ],
):
    services = _services()
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    try:
        result = asyncio.run(
            services.generator.upload(path.read_bytes(), path.name, content_type)
        )
    except KontextError as e:
        _fail(e.message)
    if not result.success:
        _fail(result.error)
    console.print(f"Uploaded to: [blue]{result.url}[/blue]")


@app.command()
def status(
    request_id: Annotated[str, typer.Argument(help="Queue request id.")],
    model: Annotated[str, typer.Option("--model", "-m")] = "max",
    fetch: Annotated[
        bool,
        typer.Option("--fetch", help="Print the result when completed.", is_flag=True),
    ] = False,
):
    services = _services()
    endpoint = get_model(model).endpoint

    async def _status():
        queue_status = await services.backend.status(endpoint, request_id)
        output = None
        if fetch and queue_status.status == "COMPLETED":
            output = await services.backend.result(endpoint, request_id)
        return queue_status, output

    try:
        queue_status, output = asyncio.run(_status())
    except KontextError as e:
        _fail(e.message)
    console.print(f"Status: [bold]{queue_status.status}[/bold]")
    for image_data in (output or {}).get("images", []):
        console.print(f"  [blue]{image_data.get('url')}[/blue]")


@app.command(name="list-models")
def list_models_command():
    table = Table(title="⚙️ FLUX.1 Kontext Models")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Kind", style="green")
    table.add_column("Endpoint", style="yellow")
    table.add_column("Safety levels")
    for spec in MODELS.values():
        kind = spec.kind + (" (multi-image)" if spec.multi_image else "")
        levels = ", ".join(spec.safety_levels) or "safety checker"
        table.add_row(spec.id, spec.name, kind, spec.endpoint, levels)
    console.print(table)


@app.command(name="list-presets")
def list_presets_command():
    table = Table(title="✂️ Editing Presets")
    table.add_column("Preset", style="cyan", no_wrap=True)
    table.add_column("Description", style="green")
    for definition in list_presets():
        table.add_row(definition.name, definition.brief)
    console.print(table)


@app.command(name="check-config")
def check_config_command():
    settings = load_settings()
    table = Table(title="🔧 Kontextai Configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row(
        "LLM API key",
        f"✅ Set ({len(settings.llm.api_key)} chars)"
        if settings.llm_configured
        else "⚠️ Not Set",
    )
    table.add_row("LLM base URL", settings.llm.base_url or "N/A (Official OpenAI)")
    table.add_row("LLM model", settings.llm.model)
    table.add_row(
        "fal.ai key",
        f"✅ Set ({len(settings.fal.api_key)} chars)"
        if settings.fal_configured
        else "⚠️ Not Set",
    )
    console.print(table)


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host")] = None,
    port: Annotated[Optional[int], typer.Option("--port")] = None,
    debug: Annotated[bool, typer.Option("--debug", is_flag=True)] = False,
):
    from kontextai.web import create_app

    settings = load_settings()
    configure_logging(settings.log_level)
    flask_app = create_app(settings)
    flask_app.run(
        host=host or settings.host,
        port=port or settings.port,
        debug=debug or settings.debug,
        threaded=True,
    )


if __name__ == "__main__":
    app()
