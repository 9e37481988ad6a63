from setuptools import find_packages, setup

setup(
    name="easycdm",
    version="0.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "cryptography",
        "requests",
        "click",
        "construct>=2.10",
        "protobuf>=4.22",
        "ecdsa",
        "lxml",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "easycdm=easycdm.cli:cli",
        ],
    },
)
