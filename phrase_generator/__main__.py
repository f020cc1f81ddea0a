"""Entry point wrapper for ``python -m phrase_generator``.

Execution is forwarded to :func:`phrase_generator.main` so ``python -m`` and
the installed ``phrase-generator`` console script behave identically.

Example
-------
::

    python -m phrase_generator --primary "e g b" --secondary "f# a c d" \
        --forbidden "g# c#" --min 50 --max 72 --seed 7
"""

from . import main

if __name__ == "__main__":
    main()
