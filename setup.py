from setuptools import setup, find_packages

setup(
    name="openpose-async-pipeline",
    version="1.0.0",
    description="Multi-person OpenPose decoding with an asynchronous inference request pipeline",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "opencv-python",
        "onnxruntime>=1.16",
        "prometheus-client",
        "pydantic>=2.0.0",
        "PyYAML",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "onnx",
        ],
        "dev": [
            "pytest",
            "pytest-asyncio",
            "onnx",
            "black",
            "isort",
            "flake8",
        ]
    }
)
