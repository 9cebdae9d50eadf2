"""Setup file for beetlebase."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="beetlebase",
    version="0.1.0",
    author="Your Name",
    description="Breeder records, plan quotas and background CSV import / PDF export jobs for beetle breeders",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/beetlebase",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=[
        "openai>=1.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "loguru>=0.7.0",
        "reportlab>=4.0.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0.0"],
    },
)
