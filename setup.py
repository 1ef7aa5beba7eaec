import os

import setuptools

setuptools.setup(
    name="discirc",
    version="0.1.0",
    license="COIL",
    description="A simple Discord <-> IRC bridge: guild categories are IRC servers, text channels are their channels.",
    keywords="bridge discord irc async trio",
    install_requires=open(os.path.join(os.path.dirname(__file__), "requirements.txt"))
    .read()
    .strip()
    .split("\n"),
    extras_require={"test": ["pytest", "pytest-trio"]},
    packages=["discirc", "discirc.backends"],
    python_requires=">=3.9",
    entry_points={"console_scripts": ["discirc = discirc.__main__:main"]},
    classifiers=[
        "Framework :: Trio",
        "Topic :: System :: Networking",
        "Topic :: Communications :: Chat",
        "Topic :: Communications :: Chat :: Internet Relay Chat",
    ],
)
