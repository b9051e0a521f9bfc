#!/usr/bin/env python3
"""
Setup script for Tone Scope
"""

from setuptools import setup

install_requires = [
    "numpy>=1.21.0",
    "scipy>=1.7.0",
    "sounddevice>=0.4.6",
    "soundfile>=0.12.1",
    "PyQt6>=6.4.0",
]

extras_require = {
    'test': ['pytest>=7.0'],
}

setup(
    name="tone-scope",
    version="1.0.0",
    description="Tone and noise generator with real-time spectrum visualization",
    py_modules=[
        "app",
        "audio_sources",
        "config",
        "controller",
        "engine",
        "errors",
        "media",
        "noise",
        "signal_source",
        "ui_components",
        "visualizer",
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Multimedia :: Sound/Audio :: Analysis",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "tone-scope=app:main",
        ],
    },
    keywords="audio tone generator noise visualizer fft spectrum",
)
