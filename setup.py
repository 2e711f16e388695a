from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent


def read_requirements(name: str) -> list[str]:
    """Requirement lines from a file, without comments or -r includes."""
    path = ROOT / name
    if not path.exists():
        return []
    lines = (line.strip() for line in path.read_text(encoding="utf-8").splitlines())
    return [line for line in lines if line and not line.startswith(("#", "-r"))]


readme_path = ROOT / "README.md"

setup(
    name="growhub",
    version="1.0.0",
    description="Greenhouse automation hub: MQTT state sync with grow light and pump control",
    long_description=readme_path.read_text(encoding="utf-8") if readme_path.exists() else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*")),
    py_modules=["run_hub"],
    python_requires=">=3.10",
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "dev": ["pytest>=7.4.0", "pytest-cov>=4.1.0"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Home Automation",
        "Topic :: Scientific/Engineering :: Agriculture",
        "Operating System :: POSIX :: Linux",
    ],
    keywords="greenhouse mqtt esp32 raspberry-pi automation",
    entry_points={"console_scripts": ["growhub=growhub.workers.hub_cli:main"]},
)
