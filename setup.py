from setuptools import setup, find_packages

setup(
    name="aweme-sync",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "httpx>=0.25.0",
        "pydantic>=2.5.0",
        "python-dotenv>=1.0.0",
        "structlog>=23.2.0",
        "pytz>=2023.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "aweme-sync=aweme_sync.main:run",
        ],
    },
)
