from pathlib import Path

from setuptools import find_packages, setup


this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")


setup(
    name="flashperp-keeper",
    version="0.1.0",
    description="Funding and liquidation keeper bots for the FlashPerp Soroban exchange",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    install_requires=[
        "requests",
        "urllib3>=1.26",
        "stellar-sdk>=10.0.0",
        "pyyaml",  # For the trader watchlist file
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
