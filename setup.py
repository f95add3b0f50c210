"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/zackees/kiln"
KEYWORDS = "build dependencies native driver port compiler scm git mercurial"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "kiln", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="kiln",
        version=read_version(),
        description="Dependency fetching and native port driver builds",
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        python_requires=">=3.10",
        install_requires=["tqdm"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["kiln=kiln.cli:main"]},
        include_package_data=True)
