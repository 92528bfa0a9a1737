#!/usr/bin/env python
from setuptools import find_packages, setup

VERSION = __import__("inventory").get_version()
INSTALL_REQUIREMENTS = [
    "Django>=4.2",
    "celery>=5.3",
    "django-redis",
    "psycopg2-binary",
    "pydantic>=2.5",
    "redis",
    "requests",
    "sentry-sdk",
    "structlog",
    "urllib3>=1.26",
]
TEST_REQUIREMENTS = ["pytest", "pytest-django"]
SCRIPTS = ["manage.py"]
DESCRIPTION = "Chunked download and sync of an external item catalog"
CLASSIFIERS = """\
Environment :: Web Environment
Framework :: Django
Programming Language :: Python
Programming Language :: Python :: 3
""".splitlines()

with open("README.md", "r") as f:
    LONG_DESCRIPTION = f.read()


setup(
    name="inventory",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    include_package_data=True,
    scripts=SCRIPTS,
    install_requires=INSTALL_REQUIREMENTS,
    extras_require={"test": TEST_REQUIREMENTS},
    python_requires=">=3.9",
    classifiers=CLASSIFIERS,
)
