from setuptools import setup

setup(
    name='memthick',
    version='0.1.0',
    description='2D maps of membrane thickness from molecular dynamics trajectories',
    packages=['memthick'],
    python_requires='>=3.9',
    install_requires=['numpy',
                      'pandas',
                      'MDAnalysis',
                      'tqdm',
                      'pyyaml'
                      ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'memthick=memthick.cli:main',
        ],
    },

    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
