from setuptools import setup, find_packages

setup(
    name='zbench_toolbag',
    version='0.1.0',
    packages=find_packages(include=['zbench_toolbag', 'zbench_toolbag.*']),
    install_requires=[
        'python-dotenv',
        'pymongo',
        'motor',
        'pandas',
        'pydantic>=2',
        'tenacity',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'zbench=zbench_toolbag.zbench_cli:main',
        ],
    },
    include_package_data=True,
    description='Load-testing harness for document containers: bulk inserts, point reads and paged queries with request-charge reports.',
    author='CentralFloridaAttorney',
    url='https://github.com/CentralFloridaAttorney/zmongo_retriever',
)
