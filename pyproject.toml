[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "concur-kit"
version = "0.1.0"
description = "Thread-based concurrency building blocks: worker pools, consistent hashing, load balancing, message queues, circuit breakers, rate limiters, actors and pipelines."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "concurrency",
    "threading",
    "worker-pool",
    "consistent-hashing",
    "load-balancer",
    "circuit-breaker",
    "rate-limiter",
    "message-queue",
    "pipeline",
    "actor",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
concur-kit = "concur_kit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["concur_kit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
