"""Package entry point for ``python -m readaloud``.

HOW: Checks sys.argv for the ``--gui`` flag. If present, launches the
Tkinter reader window. Otherwise, delegates to the CLI's main().

RULES:
- ``--gui`` launches the desktop reader (an optional file argument is opened)
- Without ``--gui``, falls through to the CLI
"""

import sys

if __name__ == "__main__":
    if "--gui" in sys.argv:
        from readaloud.gui import main as gui_main
        gui_main([arg for arg in sys.argv[1:] if arg != "--gui"])
    else:
        from readaloud.cli import main
        main()
