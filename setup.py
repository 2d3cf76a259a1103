from setuptools import setup, find_packages

setup(
    name="chartiq-backend",
    version="0.1.0",
    packages=find_packages(include=["backend", "backend.*"]),
    install_requires=[
        "fastapi>=0.95.0",
        "uvicorn>=0.15.0",
        "pydantic>=1.8.0,<2.0.0",
        "python-dotenv>=0.19.0",
        "numpy>=1.21.0",
        "pandas>=1.3.0",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.23.0",
        ],
    },
    python_requires=">=3.8",
)
