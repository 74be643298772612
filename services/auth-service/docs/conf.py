"""Sphinx configuration for the Auth Service documentation."""

from __future__ import annotations

from datetime import datetime
import os
import sys

SERVICE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SHARED_LIBS_DIR = os.path.abspath(os.path.join(SERVICE_DIR, "..", "..", "libs", "python"))
sys.path[:0] = [SERVICE_DIR, SHARED_LIBS_DIR]

from auth_service.config import Settings  # noqa: E402

project = "Auth Service"
author = "Platform Team"
copyright = f"{datetime.now():%Y}, {author}"
release = Settings().version
version = ".".join(release.split(".")[:2])

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.intersphinx",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx_autodoc_typehints",
]

# The service modules import these at module level; docs builds run without a database.
autodoc_mock_imports = ["psycopg", "psycopg_pool"]
autodoc_member_order = "bysource"
autodoc_default_options = {
    "members": True,
    "show-inheritance": True,
    "exclude-members": "model_config, model_fields",
}
autodoc_typehints = "description"

# Service docstrings use NumPy-style Parameters/Returns sections.
napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_use_rtype = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "pydantic": ("https://docs.pydantic.dev/latest", None),
    "pyjwt": ("https://pyjwt.readthedocs.io/en/stable", None),
}

root_doc = "index"
exclude_patterns: list[str] = ["_build"]
html_theme = "alabaster"
html_title = f"{project} {release}"
