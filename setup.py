from setuptools import setup, find_packages

setup(
    name="svector",
    version="1.0.0",
    description="Async Python client and terminal interface for the SVECTOR Spec-Chat API",
    author="SVECTOR",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "httpx",
        "python-dotenv",
        "rich",
        "prompt_toolkit",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "svector=svector.main:main",
        ],
    },
    python_requires=">=3.8",
)
