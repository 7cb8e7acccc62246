[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcpclient"
version = "0.1.0"
description = "Model Context Protocol client with stdio, SSE and streamable HTTP transports, an interactive shell and Markdown tool documentation helpers"
requires-python = ">=3.10"
keywords = ["mcp", "model-context-protocol", "json-rpc", "sse", "client"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "httpx",
    "prompt-toolkit",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
mcp-client = "mcpclient.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mcpclient"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
