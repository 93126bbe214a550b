from setuptools import setup

setup(
    name='btcommand-connector-py',
    version='0.0.1',
    description='Connects to a bluetooth command peripheral, answers its frame handshake and forwards its data.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['btcommand', 'btcommand.conduit', 'btcommand.config', 'btcommand.connector',
              'btcommand.protocol', 'btcommand.support'],
    package_data={'btcommand.config': ['connection.default.cfg', 'connection.schema.cfg']},
    python_requires='>=3.6',
    install_requires=[
        'pyserial>=3.0',
        'configobj>=5.0',
    ],
    extras_require={
        'test': ['PyHamcrest', 'timeout-decorator', 'pytest'],
    },
    zip_safe=False,
)
