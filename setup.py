"""Setup script for git-protocol-v2."""

from setuptools import setup, find_packages

setup(
    name="git-protocol-v2",
    version="0.1.0",
    description="Git protocol v2 message encoding and decoding with HTTPS and SSH transports",
    author="git-protocol-v2 contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "requests>=2.31.0",
        "paramiko>=3.4.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "git-v2=git_protocol_v2.main:main",
        ],
    },
    python_requires=">=3.8",
)
