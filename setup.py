from setuptools import setup


setup(
    name="candidate-checker",
    version="0.3.0",
    description="Import union candidate lists from CSV, JSON or Excel, mark them per union and report duplicates",
    packages=["candidate_checker"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "numpy",
        "chardet",
        "openpyxl",
        "loguru",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "all": ["xlrd"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "candidate-checker=candidate_checker.cli:main",
        ]
    },
)
