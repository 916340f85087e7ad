from setuptools import setup, find_packages

setup(
    name="chemgrader",
    version="0.1.0",
    packages=find_packages(include=["chemgrader", "chemgrader.*", "utils", "webapp", "webapp.*"]),
    py_modules=["run_app"],
    install_requires=[
        "flask>=3.0",
        "flask-sqlalchemy>=3.1",
        "sqlalchemy>=2.0",
        "flask-cors>=4.0",
        "werkzeug>=3.0",
        "openai>=1.30",
        "requests>=2.31",
        "python-dotenv>=1.0.1",
        "celery[sqlalchemy]>=5.3",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "httpx>=0.27",
        ],
    },
    python_requires=">=3.9",
    author="Exam Grader Team",
    description="Automated marking of A-Level chemistry answer sheets against structured mark schemes",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
