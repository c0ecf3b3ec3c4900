import setuptools

try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Build and publish container images from git commits"

setuptools.setup(
    name="commitdock",
    version="0.1.0",
    description="Build and publish container images from git commits",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src", include=["commitdock", "commitdock.*"]),
    install_requires=[
        "docker>=7.0",
        "pydantic>=2.0",
        "python-dotenv",
        "requests",
        "rich",
        "typer",
        "urllib3",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "commitdock=commitdock.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
