import pathlib

from setuptools import find_packages, setup

here = pathlib.Path(__file__).parent

with (here / "README.rst").open("r", encoding="utf-8") as fo:
    long_description = fo.read()

metadatas = dict(
    name="pglogstats",
    description="Query and latency statistics from PostgreSQL stderr logs",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    license="PostgreSQL",
    keywords="postgresql log log_line_prefix statistics latency",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: PostgreSQL License",
        "Programming Language :: Python :: 3",
        "Topic :: Database",
        "Topic :: System :: Logging",
    ],
    use_scm_version={"fallback_version": "0.1.0"},
    setup_requires=["setuptools_scm"],
    install_requires=[
        "typing_extensions",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": ["pglogstats=pglogstats.__main__:main"],
    },
)


if __name__ == "__main__":
    setup(
        packages=find_packages(".", include=["pglogstats", "pglogstats.*"]),
        package_data={"pglogstats": ["py.typed"]},
        python_requires=">=3.8",
        **metadatas
    )
