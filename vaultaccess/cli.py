import argparse
import getpass
import logging
import sys

from vaultaccess import client
from vaultaccess.backend import Arguments
from vaultaccess.backend import BackendError
from vaultaccess.backend import JsonConfigurationFile
from vaultaccess.config import CONFIGURATION_PATH_ENVIRONMENT_VARIABLE
from vaultaccess.config import DEFAULT_CONFIGURATION_PATH
from vaultaccess.config import ClientConfiguration
from vaultaccess.config import get_domain
from vaultaccess.errors import VaultAccessException
from vaultaccess.ui import ConsolePrompter


logger = logging.getLogger(__name__)

_UUID_KEY = 'uuid'


def create_argument_parser():
    argument_parser = argparse.ArgumentParser(
        prog='vaultaccess',
        description="Download and decrypt all the vaults of a password manager account."
    )

    argument_parser.add_argument('username')
    argument_parser.add_argument('account_key')
    argument_parser.add_argument('--uuid', default=None)
    argument_parser.add_argument('--domain', default=None)
    argument_parser.add_argument('--region', default=None)
    argument_parser.add_argument('--show-passwords', action='store_true')
    argument_parser.add_argument('--verbose', action='store_true')

    return argument_parser


def find_client_uuid(parsed_args, configuration_file):
    """The client id is generated once and reused on later runs."""

    if parsed_args.uuid:
        return parsed_args.uuid

    uuid = configuration_file.load_string(_UUID_KEY)

    if not uuid:
        uuid = client.generate_random_uuid()
        configuration_file.store_string(_UUID_KEY, uuid)

    return uuid


def format_vaults(vaults, show_passwords=False):
    lines = []

    for single_vault in vaults:
        lines.append("{name} ({count} accounts)".format(
            name=single_vault.name,
            count=len(single_vault.accounts)
        ))

        for single_account in single_vault.accounts:
            password = single_account.password if show_passwords else "********"
            lines.append("    {name}: {username} {password} {url}".format(
                name=single_account.name,
                username=single_account.username,
                password=password,
                url=single_account.url
            ).rstrip())

    return "\n".join(lines)


def main(argv=None, password_prompt=getpass.getpass):
    parsed_args = create_argument_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    configuration_file = JsonConfigurationFile(
        path_environment_variable=CONFIGURATION_PATH_ENVIRONMENT_VARIABLE,
        default_path=DEFAULT_CONFIGURATION_PATH
    )

    try:
        config = ClientConfiguration.from_sources(
            [Arguments(parsed_args), configuration_file]
        )

        if parsed_args.region:
            config = config._replace(domain=get_domain(parsed_args.region))

        uuid = find_client_uuid(parsed_args, configuration_file)
        password = password_prompt("Password: ")

        vaults = client.open_all_vaults(
            username=parsed_args.username,
            password=password,
            account_key=parsed_args.account_key,
            uuid=uuid,
            domain=config.domain,
            ui=ConsolePrompter(),
            storage=configuration_file,
            config=config
        )

    except (VaultAccessException, BackendError, ValueError) as e:
        logger.debug("failed to open the vaults", exc_info=True)
        print("Error: {message}".format(message=e), file=sys.stderr)

        return 1

    print(format_vaults(vaults, show_passwords=parsed_args.show_passwords))

    return 0
