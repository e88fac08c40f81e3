from setuptools import setup, find_packages

setup(
    name="issue-scout",
    version="1.0.0",
    description="Find open, unassigned GitHub issues with no linked pull request",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "issue-scout=issue_scout.main:main",
        ],
    },
)
