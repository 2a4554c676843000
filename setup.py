"""Setup script for the PPC Intelligence Agent.

Distribution name: ppc-agent
Python packages: ppc_agent (agent, tools, webhook server)
"""

from setuptools import setup, find_packages


def _read_readme() -> str:
    try:
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    except Exception:
        return 'PPC Intelligence Agent - autonomous Google Ads management powered by Claude.'


setup(
    name='ppc-agent',
    version='0.3.0',
    description='PPC Intelligence Agent: Google Ads management over MCP with Claude tool use',
    long_description=_read_readme(),
    long_description_content_type='text/markdown',
    author='PPC Agent Contributors',
    author_email='',
    packages=find_packages(exclude=['tests', 'tests.*']),
    # Top-level module used by the console entrypoint.
    py_modules=['run_agent'],
    python_requires='>=3.10',
    install_requires=[
        'fastapi>=0.104.0',
        'uvicorn>=0.24.0',
        'pydantic>=2.0.0',
        'httpx>=0.25.0',
        'python-dotenv>=1.0.0',
        # Claude Messages API with tool use
        'anthropic>=0.40.0',
    ],
    entry_points={
        'console_scripts': [
            'ppc-agent=run_agent:main',
        ]
    },
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.21.0',
            'pytest-cov>=4.1.0',
        ],
        'dev': [
            'black>=23.0.0',
            'ruff>=0.1.0',
            'mypy>=1.6.0',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
