import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="sponsored-tx-gateway",
    version="0.1.0",
    description="Gateway and latency probe for gas-sponsored embedded-wallet transactions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "requests",
        "web3>=6",
        "cryptography",
        "python-dotenv",
    ],
    extras_require={
        "test": ["pytest", "httpx"],
    },
    entry_points={
        "console_scripts": [
            "sponsor-gateway=gateway.__main__:main",
            "sponsor-latency=latency.__main__:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
)
