#!/usr/bin/env python3
from setuptools import setup

import hapcam.const as hapcam_const

NAME = "HAP-camera-ffmpeg"
DESCRIPTION = "HomeKit camera stream negotiation and ffmpeg session management"
URL = "https://github.com/hapcam/{}".format(NAME)
AUTHOR = "HAP-camera-ffmpeg contributors"


PROJECT_URLS = {
    "Bug Reports": "{}/issues".format(URL),
    "Source": "{}/tree/master".format(URL),
}


MIN_PY_VERSION = ".".join(map(str, hapcam_const.REQUIRED_PYTHON_VER))

with open("README.md", "r", encoding="utf-8") as f:
    README = f.read()


REQUIRES = ["h11", "async_timeout"]


setup(
    name=NAME,
    version=hapcam_const.__version__,
    description=DESCRIPTION,
    long_description=README,
    long_description_content_type="text/markdown",
    url=URL,
    author=AUTHOR,
    packages=["hapcam"],
    include_package_data=True,
    project_urls=PROJECT_URLS,
    python_requires=">={}".format(MIN_PY_VERSION),
    install_requires=REQUIRES,
    license="Apache License 2.0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Natural Language :: English",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Home Automation",
        "Topic :: Multimedia :: Video",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
)
