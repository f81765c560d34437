from setuptools import setup, find_packages

setup(
    name="zylith",
    version="0.1.0",
    description="Zylith: a shielded privacy pool over a concentrated-liquidity AMM",
    author="Zylith Team",
    author_email="team@zylith.dev",
    url="https://github.com/zylith-protocol/zylith",
    license="MIT",
    python_requires=">=3.9",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "cryptography>=40.0.0",
        "py_ecc>=6.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy>=2.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "isort>=5.12.0",
        ],
        "api": [
            "fastapi>=0.95.0",
            "uvicorn>=0.21.0",
            "httpx>=0.24.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "hypothesis>=6.0.0",
            "fastapi>=0.95.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "zylith-api=zylith.api.routes:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
