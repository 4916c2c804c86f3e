from setuptools import find_packages, setup
import os
import codecs


def read(rel_path):
    here = os.path.abspath(os.path.dirname(__file__))
    with codecs.open(os.path.join(here, rel_path), "r") as fp:
        return fp.read()


def get_version(rel_path):
    for line in read(rel_path).splitlines():
        if line.startswith("__version__"):
            delim = '"' if '"' in line else "'"
            return line.split(delim)[1]
    raise RuntimeError("Unable to find version string.")


NAME = "msdatastats"
LICENSE = "MIT License"
DESCRIPTION = "Spectrum classification, LC-MS data reduction and dataset statistics for mass spectrometry runs"
AUTHOR = "Yasset Perez-Riverol, Dai Chengxin"
AUTHOR_EMAIL = "ypriverol@gmail.com"
URL = "https://www.github.com/bigbio/msdatastats"
PROJECT_URLS = {
    "quantms Workflow": "https://github.com/bigbio/quantms",
    "Tracker": "https://github.com/bigbio/msdatastats/issues",
}

KEYWORDS = [
    "quantms",
    "Proteomics",
    "Mass spectrometry",
]

CLASSIFIERS = [
    "Intended Audience :: Science/Research",
    "License :: OSI Approved :: MIT License",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3 :: Only",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
    "Development Status :: 4 - Beta",
]

INSTALL_REQUIRES = [
    "click",
    "pyopenms",
    "pydantic>=2",
    "pandas",
    "numpy",
    "pyarrow",
]
EXTRAS_REQUIRE = {
    "test": ["pytest"],
}
PYTHON_REQUIRES = ">=3.8,<4"

with open("README.md", "r") as fh:
    LONG_DESCRIPTION = fh.read()

setup(
    name=NAME,
    version=get_version("msdatastats/__init__.py"),
    license=LICENSE,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    author=AUTHOR,
    author_email=AUTHOR_EMAIL,
    url=URL,
    project_urls=PROJECT_URLS,
    keywords=KEYWORDS,
    classifiers=CLASSIFIERS,
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    entry_points={"console_scripts": ["msdatastatsc=msdatastats.msdatastatsc:main"]},
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
    python_requires=PYTHON_REQUIRES,
)
