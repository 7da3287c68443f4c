from setuptools import setup, find_packages

setup(
    name="capbroker",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2",
        "aiosqlite",
        "google-genai",
        "python-dotenv",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "capbroker=capbroker.cli.cli:main",
        ],
    },
)
