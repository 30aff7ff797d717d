# -*- coding: utf-8 -*-
from setuptools import setup

packages = \
['fwboot',
 'fwboot.devices']

package_data = \
{'': ['*']}

modules = \
['fwtool']
install_requires = \
['typing-extensions>=4.4,<5.0']

entry_points = \
{'console_scripts': ['fwtool = fwboot._cli:main']}

setup_kwargs = {
    'name': 'fwboot',
    'version': '1.0.0',
    'description': 'Firmware image builder and update-on-boot bootloader core',
    'long_description': "# fwboot\n\nBuilds firmware images with a CRC protected header from Intel HEX files,\nand decides at boot whether to install a new image from external storage.\n\n## Usage\n\n```\n./fwtool.py build app.hex -c 0x26000 --header 0,0x26000 -o _firmware.bin\n./fwtool.py verify _firmware.bin\n./fwtool.py simulate --storage sd --flash flash.bin\n```\n\nAll output is JSON on `stdout`. Logging goes to `stderr`, use `--debug` for more.\n",
    'long_description_content_type': 'text/markdown',
    'author': 'fwboot developers',
    'author_email': 'None',
    'maintainer': 'None',
    'maintainer_email': 'None',
    'url': 'None',
    'packages': packages,
    'package_data': package_data,
    'py_modules': modules,
    'install_requires': install_requires,
    'entry_points': entry_points,
    'python_requires': '>=3.8',
}


setup(**setup_kwargs)
