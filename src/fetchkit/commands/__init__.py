"""Built-in CLI sub-commands for fetchkit.

* :mod:`~fetchkit.commands.request` -- send a request.
* :mod:`~fetchkit.commands.cache` -- inspect and prune the response cache.
* :mod:`~fetchkit.commands.config` -- view and modify global settings.
"""
