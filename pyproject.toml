[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cascade-engine"
version = "1.0.0"
description = "A rule-driven event processing engine with cascading events, scoped rules, priorities and a worker thread pool."
requires-python = ">=3.10"
dependencies = []
keywords = ["events", "rules", "event-processing", "thread-pool", "pubsub", "cascade"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cascade_engine"]

[tool.pytest.ini_options]
addopts = "-ra"
