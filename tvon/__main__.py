"""
tvon 模块入口点 - 支持通过 `python -m tvon` 方式启动

启动链路：
python -m tvon → __main__.py → cli/commands.py 中的 Typer app
"""

from tvon.cli.commands import app

if __name__ == "__main__":
    app()
