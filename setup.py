#!/usr/bin/env python3
"""
Setup script for the cybox-chat client
"""

from setuptools import setup, find_packages

setup(
    name="cybox-chat",
    version="0.1.0",
    description="Terminal client and session core for the cybox WebSocket chat protocol",
    packages=find_packages(include=["chat_client", "chat_client.*", "shared", "shared.*"]),
    install_requires=[
        "websockets>=15.0",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'cybox-chat=chat_client.cli:main',
        ],
    },
)
