import os
from setuptools import setup

long_description=''
if os.path.exists("README.md"):
    with open("README.md","r") as fh:
        long_description = fh.read()
setup(
    name='pffrg',
    version='0.1.0',
    description='Pseudo-Fermion Functional Renormalization Group Solver for Quantum Spin Models',
    packages=["pffrg"],
    package_data={"pffrg":["resources/*.xml"]},
    install_requires=['numba','numpy','h5py'],
    python_requires='>=3.8',
    extras_require={'mpi':['mpi4py'],'test':['pytest']},
    entry_points={'console_scripts':['pffrg=pffrg.cli:main']},
    long_description=long_description,
    long_description_content_type="text/markdown",
)
