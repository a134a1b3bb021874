"""myprs: browse the Bitbucket pull requests you authored from the terminal."""

__version__ = "0.3.0"
