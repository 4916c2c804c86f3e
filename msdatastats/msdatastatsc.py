import click

from msdatastats.classifier.cdta_check import cdta_check
from msdatastats.mzml.dataset_statistics import dataset_statistics
from msdatastats import __version__

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@click.version_option(
    version=__version__, package_name="msdatastats", message="%(package)s %(version)s"
)
@click.group(context_settings=CONTEXT_SETTINGS)
def cli():
    pass


cli.add_command(dataset_statistics)
cli.add_command(cdta_check)


def main():
    try:
        cli()
    except SystemExit as e:
        if e.code != 0:
            raise


if __name__ == "__main__":
    main()
