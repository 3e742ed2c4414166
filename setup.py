"""
Setup script for cloop-tutor.

Cloop Tutor is an adaptive tutoring session engine. A learner works through
a topic's goals one question batch at a time:

1. Goals and questions are generated by a language model and cached
2. Every answer is evaluated, annotated and recorded
3. Goal and session summaries report accuracy, gaps and next steps

The 'cloop-tutor' command runs an interactive session in the terminal.
"""

from setuptools import find_packages, setup

setup(
    name="cloop-tutor",
    version="1.0.0",
    description="Adaptive tutoring session engine driven by a language model",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Cloop",
    packages=find_packages(include=["cloop_tutor", "cloop_tutor.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cloop-tutor=cloop_tutor.cli.tutor_cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="tutoring adaptive-learning llm education cli",
)
