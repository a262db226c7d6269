from setuptools import find_packages, setup

setup(
    name='lh-server',
    version='1.0.0',
    description='On-device health, metrics and log monitoring daemon for PTZ cameras',
    author='',
    author_email='',
    packages=find_packages(include=['lhserver', 'lhserver.*']),
    python_requires='>=3.11',
    install_requires=[
        'httpx',
        'msgspec',
        'prometheus-client',
        'psutil',
        'tenacity',
        'transitions',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'lhserver=lhserver.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
