"""Setup configuration for prwatch"""

from setuptools import setup, find_packages

setup(
    name="github-pr-watch",
    version="0.1.0",
    description=(
        "Multi-account GitHub pull request watcher: GraphQL with REST fallback, "
        "priority deduplication and single-flight polling."
    ),
    author="GitHub PR Watch Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "github-pr-watch=prwatch.main:main",
        ],
    },
)
