"""
FastAPI dependencies.
"""
from functools import lru_cache

from vncompiler.services.compiler import VNCompiler
from vncompiler.services.script_validator import ScriptValidator


@lru_cache()
def get_compiler() -> VNCompiler:
    return VNCompiler()


@lru_cache()
def get_validator() -> ScriptValidator:
    return ScriptValidator()
