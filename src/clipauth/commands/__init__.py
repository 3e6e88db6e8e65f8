"""Built-in CLI sub-command groups for clipauth.

* :mod:`~clipauth.commands.auth` -- sign in, sign out, session status and
  the current access token.
* :mod:`~clipauth.commands.target` -- the recently used notebook and
  section stored next to the session.
* :mod:`~clipauth.commands.config` -- view and modify client settings.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`clipauth.app` mounts on the root app.
"""
