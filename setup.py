import io
import re

from setuptools import find_packages, setup

__version__ = re.search(
    r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
    io.open("colonist/version.py", encoding="utf_8_sig").read(),
).group(1)


setup(
    name="colonist-python",
    version=__version__,
    description="colonist plans and applies a colony of interdependent terraform modules.",
    long_description="""colonist plans and applies a colony of interdependent terraform modules, concurrently and in dependency order, within isolated sessions.""",
    author="",
    author_email="",
    packages=find_packages(include=["colonist", "colonist.*"]),
    zip_safe=False,
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.5",
        "typing_extensions",
        "networkx",
        "fire",
        "pyyaml",
        "httpx",
        "python-ulid",
    ],
    extras_require={
        "tests": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "colony=colonist.__main__:main",
        ],
    },
)
