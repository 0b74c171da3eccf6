"""
Setup configuration for the RPLidar interface library.

This is a pure Python library with no ROS2 dependencies.
It can be installed via:
    - pip install .
    - pip install -e .  (for development)
"""

from setuptools import setup, find_packages

package_name = 'rplidar_interface'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test', 'tests']),

    install_requires=[
        'setuptools',
        'pyserial>=3.5',
        'numpy>=1.21.0',
    ],

    extras_require={
        'dev': [
            'pytest>=7.0',
            'pytest-cov',
            'pytest-timeout',
        ],
    },

    zip_safe=True,

    maintainer='Eyas Taifour',
    maintainer_email='etaifour@me.com',
    description='Serial driver for Slamtec RPLidar sensors',
    long_description=open('README.md').read() if __import__('os').path.exists('README.md') else '',
    long_description_content_type='text/markdown',
    license='MIT',

    tests_require=['pytest'],

    # CLI tools
    entry_points={
        'console_scripts': [
            'rplidar-scan = rplidar_interface.cli:main',
        ],
    },

    python_requires='>=3.8',

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Topic :: Scientific/Engineering :: Robotics',
    ],
)
