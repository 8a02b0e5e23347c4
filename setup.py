# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "stim>=1.12",
    "python-osc>=1.8",
    "mashumaro[msgpack]",
    "loguru",
    "setproctitle",
    "click>=8.0.0",
    "psutil>=6.1.0",
]

extras = {
    "test": [
        "pytest",
        "pytest_asyncio>=0.24.0",
    ],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# package data: sysconfig/servers is not a package, so its profiles are listed
# relative to qosc
package_data = {
    "": ["*.md"],
    "qosc": ["sysconfig/servers/*.ini"],
}

# Read version
version = {}
with open(here / "src" / "qosc" / "_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="qosc",
        version=version["__version__"],
        description="Quantum simulator backends served over Open Sound Control.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "OSC",
            "Open Sound Control",
            "Quantum",
            "Stabilizer",
            "Steane code",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 2 - Pre-Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test_*"],
        ),
        entry_points={
            "console_scripts": [
                "qosc=qosc.cli:cli",
            ],
        },
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
        package_data=package_data,
    )
