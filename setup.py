"""Set-up file for PartiPy for installations usins ``pip install .``"""
from setuptools import find_packages, setup


with open("requirements.txt") as f:
    required = f.read().splitlines()


setup(
    name="partipy",
    version="0.3.0",
    license="GPL",
    keywords=["partitioned multiphysics coupling precice checkpointing"],
    install_requires=required,
    extras_require={
        "testing": ["pytest"],
        "precice": ["pyprecice<3"],
    },
    description="Coupling adapter for participants of partitioned simulations",
    platforms=["Linux", "Windows", "Mac OS-X"],
    package_data={
        "partipy": ["py.typed"],
    },
    packages=find_packages("src"),
    package_dir={"": "src"},
    zip_safe=False,
)
