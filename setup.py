"""
Setup file.
"""

import os

from setuptools import setup

URL = "https://github.com/mmone/marlintool"
KEYWORDS = "marlin arduino firmware 3d-printer toolchain provisioning git-mirror cache"
HERE = os.path.dirname(os.path.abspath(__file__))



if __name__ == "__main__":
    setup(
        maintainer="marlintool contributors",
        keywords=KEYWORDS,
        url=URL,
        include_package_data=True)
