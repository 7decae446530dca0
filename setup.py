from setuptools import setup, find_packages

setup(
    name="evpscope",
    version="0.1.0",
    description="Real-time spectral analysis and EVP classification engine",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "loguru>=0.7.2",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "evpscope=main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Topic :: Multimedia :: Sound/Audio :: Analysis",
    ],
    license="Apache License 2.0",
    keywords="audio spectral-analysis voice-activity-detection evp",
    python_requires=">=3.9",
)
