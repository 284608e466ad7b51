# utils/path.py
import sys, os

def app_dir() -> str:
    """
    開發時回傳目前工作目錄；
    PyInstaller 打包後回傳執行檔旁邊的資料夾（logs/、state/ 都放這裡）。
    """
    if getattr(sys, "frozen", False):
        return os.path.dirname(sys.executable)
    return os.getcwd()

def default_state_path() -> str:
    return os.path.join(app_dir(), "state", "stepgrid.json")
