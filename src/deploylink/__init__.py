"""deploylink - デプロイ先とソース管理プロバイダの接続を管理する"""

__version__ = "0.1.0"
