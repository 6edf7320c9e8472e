from setuptools import find_packages, setup

setup(
    name="job-gateway",
    version="0.1.0",
    packages=find_packages(
        include=[
            "gw_common",
            "gw_common.*",
            "gw_persistence",
            "gw_persistence.*",
            "gw_upstream",
            "gw_upstream.*",
            "gw_scheduler",
            "gw_scheduler.*",
            "gw_server",
            "gw_server.*",
            "gw_admin",
            "gw_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
        "croniter>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "job-gateway=gw_server.__main__:main",
            "gw-scheduler=gw_scheduler.__main__:main",
            "gw-admin=gw_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
