from setuptools import setup, find_packages

setup(
    name="kercat",
    version="0.1.0",
    description="A netcat-style pipe between stdin/stdout and a TCP peer, built on asyncio",
    author="Sudip Bhattarai",
    author_email="sudip@bhattarai.me",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[],
    extras_require={
        "test": [
            "pytest>=8.3.2",
            "pytest-asyncio>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kercat=kercat.cli:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
    ],
)
