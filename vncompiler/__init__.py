"""
VN Compiler - compiles YAML visual novel scripts into single-file HTML games
"""

__version__ = "0.1.0"
