"""C++翻訳単位のヘッダー使用状況解析ツール。"""

__version__ = "0.1.0"
