from setuptools import setup, find_packages

setup(
    name="rppg_af",
    version="0.1.0",
    description="rPPG heart rate, HRV and AF risk estimation from facial colour traces",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    package_data={"rppg_af": ["data/*.json"]},
    python_requires=">=3.11",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "opencv-python>=4.8",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "rppg-af=main:main",
        ]
    },
)
