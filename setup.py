from setuptools import setup, find_packages

setup(
    name="catalog-enrichment",
    version="0.1.0",
    packages=find_packages(include=["catalog_enrichment", "catalog_enrichment.*", "configs", "configs.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "openai>=1.0.0",
        "redis>=5.0.1",
        "aiohttp>=3.8.0",
        "tiktoken>=0.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "catalog-sync=catalog_enrichment.sync.sync_cli:main",
        ],
    },
)
