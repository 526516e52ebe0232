"""Setup script for the Gemini gateway."""

from setuptools import setup, find_packages

setup(
    name="geminigate",
    version="1.0.0",
    description="Cached, quota-governed and rate-paced Gemini access for trading-journal features",
    python_requires=">=3.11",
    packages=find_packages(include=["geminigate", "geminigate.*"]),
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "httpx>=0.27",
        "anyio>=4.0",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "respx>=0.21",
        ],
    },
)
