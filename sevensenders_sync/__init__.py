"""
Seven Senders 注文トラッキング連携システム

ディレクトリ構造:
- api/: 外部API関連 (Seven Senders)
- core/: コアビジネスロジック (注文エクスポート, 配達日照合)
- services/: システムサービス (例外, フック, リソース管理)
- utils/: ユーティリティ関数と定数
- config/: 設定管理 (システム設定, プラグインオプション)
- database/: 注文データとメタデータの永続化
"""
