# -*- coding: utf-8 -*-
from setuptools import setup

packages = ["sheetsync", "sheetsync.clients"]

package_data = {"": ["*"]}

install_requires = [
    "requests>=2.22,<3.0",
    "python-dotenv>=1.0,<2.0",
    "google-auth>=2.0,<3.0",
    "google-api-python-client>=2.0,<3.0",
]

extras_require = {"test": ["pytest>=7.0"]}

with open("README.md", "r") as f:
    long_description = f.read()

setup_kwargs = {
    "name": "sheetsync",
    "version": "0.1.0",
    "description": "Sync spreadsheet contacts into HubSpot.",
    "long_description": long_description,
    "long_description_content_type": "text/markdown",
    "packages": packages,
    "package_data": package_data,
    "install_requires": install_requires,
    "extras_require": extras_require,
    "entry_points": {"console_scripts": ["sheetsync = sheetsync.__main__:main"]},
    "python_requires": ">=3.8,<4.0",
}


setup(**setup_kwargs)
