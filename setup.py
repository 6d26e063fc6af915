"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="direct-chat",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic>=2",
        "structlog",
        "prometheus-client",
        "opentelemetry-instrumentation-fastapi",
        "google-generativeai",
        "python-jose[cryptography]",
        "numpy",
    ],
    entry_points={
        "console_scripts": ["direct-chat=direct_chat.__main__:main"],
    },
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
