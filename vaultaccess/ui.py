import collections
import getpass


Passcode = collections.namedtuple('Passcode', ['code', 'remember_me'])


class Ui:
    """
    Asked for a second factor code when the server wants one.  Returning
    None cancels the login.
    """

    def provide_google_auth_passcode(self):
        raise NotImplementedError


class ConsolePrompter(Ui):

    def __init__(self, prompt_strategy=getpass.getpass, input_strategy=input):
        self._prompt_strategy = prompt_strategy
        self._input_strategy = input_strategy

    def provide_google_auth_passcode(self):
        code = self._prompt_strategy("Enter Google Authenticator code: ").strip()

        if not code:
            return None

        answer = self._input_strategy("Remember this device? [y/N]: ")
        remember_me = answer.strip().lower() in ('y', 'yes')

        passcode = Passcode(code=code, remember_me=remember_me)

        return passcode
