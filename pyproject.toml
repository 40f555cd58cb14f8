[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "micropng"
version = "0.1.0"
description = "A small pure-Python PNG decoder with its own inflate implementation and a PNG to TGA converter"
requires-python = ">=3.10"
dependencies = []
keywords = ["png", "decoder", "inflate", "deflate", "zlib", "tga", "image"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
png2tga = "micropng.png2tga:main"

[tool.hatch.build.targets.wheel]
packages = ["micropng"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
