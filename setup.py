import setuptools

with open("reel/.version") as f:
    version = f.read().strip()

setuptools.setup(
    name="reel",
    version=version,
    python_requires=">=3.11.0",
    license="Apache-2.0",
    entry_points={"console_scripts": ["reel = reel.__main__:main"]},
    packages=setuptools.find_packages(include=["reel", "reel.*"]),
    package_data={"reel": ["*.sql", ".version"]},
    install_requires=[
        "appdirs",
        "cachetools",
        "click",
        "mutagen",
        "pillow",
        "tomli-w",
        "uuid6",
    ],
    extras_require={"test": ["pytest"]},
)
