"""
Compile API routes.

Every path a client sends is resolved inside the server workdir.
"""
import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from vncompiler import __version__
from vncompiler.config import settings
from vncompiler.dependencies import get_compiler, get_validator
from vncompiler.models.compiler import CompileRequest, GameMetadata
from vncompiler.models.dependency import DependencyDeclaration
from vncompiler.models.validation import ValidationResult
from vncompiler.services.compiler import VNCompiler
from vncompiler.services.script_validator import ScriptValidator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Compiler"])

GAME_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class CompileApiRequest(BaseModel):
    """Compile request as sent over HTTP; paths are relative to the workdir"""
    input: Optional[str] = None
    script: Optional[str] = None                # literal YAML instead of a path
    output: str = "game.html"
    assets_dir: Optional[str] = None
    custom_css: Optional[str] = None
    custom_js: Optional[str] = None
    minify: bool = False
    title: Optional[str] = None
    theme: Optional[str] = None
    metadata: GameMetadata = Field(default_factory=GameMetadata)
    dependencies: List[Union[DependencyDeclaration, str]] = Field(default_factory=list)


class ValidateApiRequest(BaseModel):
    content: Optional[str] = None
    input: Optional[str] = None


def _workdir() -> Path:
    return Path(settings.server_workdir).resolve()


def _inside_workdir(value: str, label: str) -> Path:
    root = _workdir()
    candidate = (root / value).resolve()
    if candidate != root and root not in candidate.parents:
        raise HTTPException(status_code=400, detail=f"{label} must stay inside the server workdir: {value}")
    return candidate


def _optional_path(value: Optional[str], label: str) -> Optional[str]:
    return str(_inside_workdir(value, label)) if value else None


@router.get("/status")
async def status(compiler: VNCompiler = Depends(get_compiler)):
    """Fetch cache and effective settings"""
    cache = compiler.resolver.cache
    return {
        "status": "ok",
        "version": __version__,
        "workdir": str(_workdir()),
        "cache": {"enabled": cache.enabled, "entries": len(cache)},
        "settings": {
            "fetch_timeout_seconds": settings.fetch_timeout_seconds,
            "fetch_max_retries": settings.fetch_max_retries,
            "fetch_concurrency": settings.fetch_concurrency,
            "cdn_url_template": settings.cdn_url_template,
            "default_theme": settings.default_theme,
        },
    }


@router.post("/compile")
async def compile_game(payload: CompileApiRequest, compiler: VNCompiler = Depends(get_compiler)):
    """Compile a script into a single HTML file under the workdir"""
    if payload.script:
        script_input = payload.script if "\n" in payload.script else payload.script + "\n"
    elif payload.input:
        script_input = str(_inside_workdir(payload.input, "input"))
    else:
        raise HTTPException(status_code=400, detail="Either 'input' or 'script' is required")

    output = _inside_workdir(payload.output, "output")
    if output.suffix.lower() not in (".html", ".htm"):
        raise HTTPException(status_code=400, detail="output must be an .html file")

    request = CompileRequest(
        input=script_input,
        output=str(output),
        assets_dir=_optional_path(payload.assets_dir, "assets_dir"),
        custom_css=_optional_path(payload.custom_css, "custom_css"),
        custom_js=_optional_path(payload.custom_js, "custom_js"),
        minify=payload.minify,
        title=payload.title,
        theme=payload.theme,
        metadata=payload.metadata,
        dependencies=payload.dependencies,
    )
    result = await compiler.compile(request)
    body = result.model_dump(by_alias=True)
    if result.success:
        body["outputPath"] = str(output.relative_to(_workdir()))
        return body
    logger.warning("[CompileAPI] Compile failed: %s", result.error)
    return JSONResponse(status_code=422, content=body)


@router.post("/validate", response_model=ValidationResult)
async def validate_script(payload: ValidateApiRequest, validator: ScriptValidator = Depends(get_validator)):
    if payload.content is not None:
        return validator.validate(payload.content)
    if not payload.input:
        raise HTTPException(status_code=400, detail="Either 'content' or 'input' is required")
    path = _inside_workdir(payload.input, "input")
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Script not found: {payload.input}")
    return validator.validate_file(path)


@router.get("/games/{name}", response_class=HTMLResponse)
async def get_game(name: str):
    """Serve a compiled game from the workdir"""
    if not GAME_NAME_PATTERN.match(name):
        raise HTTPException(status_code=400, detail=f"Invalid game name: {name}")
    filename = name if name.endswith((".html", ".htm")) else f"{name}.html"
    path = _inside_workdir(filename, "game")
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Game not found: {name}")
    return HTMLResponse(content=path.read_text(encoding="utf-8"))
