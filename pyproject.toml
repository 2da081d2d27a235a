[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcroracle"
version = "0.1.0"
description = "Predict TPM PCR register values from zero or a boot-time snapshot, with explicit extend operations"
requires-python = ">=3.10"
dependencies = []
keywords = ["tpm", "pcr", "measured-boot", "prediction", "secure-boot"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pcr-oracle = "pcroracle.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pcroracle"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
