"""Setup configuration for flowmetrics"""

from setuptools import setup, find_packages

setup(
    name="jira-flow-metrics",
    version="0.1.0",
    description=(
        "CLI tool and engine for Jira board flow metrics: cycle time, "
        "time in status, percentiles and completion forecasts."
    ),
    author="Jira Flow Metrics Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "python-dateutil>=2.8.2",
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
            "jira-flow-metrics=flowmetrics.main:main",
        ],
    },
)
