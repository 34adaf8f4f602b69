"""
プロバイダレジストリ

プロバイダ識別子から認可URL・OAuth利用有無・表示ラベルを引く静的テーブル
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from deploylink.errors import UnknownProviderException, create_unknown_provider_error
from deploylink.models import ProviderIdentity, parse_provider_identity


@dataclass(frozen=True)
class ProviderDescriptor:
    """プロバイダの能力と表示に関する記述

    Attributes:
        identity: プロバイダ識別子
        authorization_url: 認可画面のURL（OAuthを使わない場合は空）
        uses_oauth: OAuthハンドシェイクが必要かどうか
        display_label_key: ソース表示用の翻訳キー
        display_name: 既定の表示名
        token_route: バックエンドのトークン交換ルート名
        account_name_path: ユーザー情報ペイロード内の表示名の位置
    """
    identity: ProviderIdentity
    authorization_url: str
    uses_oauth: bool
    display_label_key: str
    display_name: str
    token_route: str = ""
    account_name_path: Tuple[str, ...] = ()


# 能力テーブル。プロバイダの追加・削除はここだけを変更する
_PROVIDER_TABLE: Tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        identity=ProviderIdentity.GITHUB,
        authorization_url="https://github.com/login/oauth/authorize",
        uses_oauth=True,
        display_label_key="deploymentCenterCodeSettingsSourceGitHub",
        display_name="GitHub",
        token_route="github",
        account_name_path=("login",),
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.BITBUCKET,
        authorization_url="https://bitbucket.org/site/oauth2/authorize",
        uses_oauth=True,
        display_label_key="deploymentCenterCodeSettingsSourceBitbucket",
        display_name="Bitbucket",
        token_route="bitbucket",
        account_name_path=("username",),
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.DROPBOX,
        authorization_url="https://www.dropbox.com/oauth2/authorize",
        uses_oauth=True,
        display_label_key="deploymentCenterCodeSettingsSourceDropbox",
        display_name="Dropbox",
        token_route="dropbox",
        account_name_path=("name", "display_name"),
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.ONEDRIVE,
        authorization_url="https://login.live.com/oauth20_authorize.srf",
        uses_oauth=True,
        display_label_key="deploymentCenterCodeSettingsSourceOneDrive",
        display_name="OneDrive",
        token_route="onedrive",
        account_name_path=("createdBy", "user", "displayName"),
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.AZURE_REPOS,
        authorization_url="https://app.vssps.visualstudio.com/oauth2/authorize",
        uses_oauth=True,
        display_label_key="deploymentCenterCodeSettingsSourceAzureRepos",
        display_name="Azure Repos",
        token_route="vso",
        account_name_path=("displayName",),
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.LOCAL_GIT,
        authorization_url="",
        uses_oauth=False,
        display_label_key="deploymentCenterCodeSettingsSourceLocalGit",
        display_name="Local Git",
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.EXTERNAL_GIT,
        authorization_url="",
        uses_oauth=False,
        display_label_key="deploymentCenterCodeSettingsSourceExternalGit",
        display_name="External Git",
    ),
    ProviderDescriptor(
        identity=ProviderIdentity.NONE,
        authorization_url="",
        uses_oauth=False,
        display_label_key="",
        display_name="",
    ),
)


class ProviderRegistry:
    """プロバイダ識別子の解決（副作用なし）"""

    def __init__(
        self,
        authorize_url_overrides: Optional[Mapping[str, str]] = None,
        descriptors: Optional[Iterable[ProviderDescriptor]] = None,
    ) -> None:
        """ProviderRegistryを初期化する

        Args:
            authorize_url_overrides: scmType 名をキーにした認可URLの上書き
            descriptors: テスト用に差し替える能力テーブル
        """
        table: Dict[ProviderIdentity, ProviderDescriptor] = {
            d.identity: d for d in (descriptors if descriptors is not None else _PROVIDER_TABLE)
        }
        for key, url in (authorize_url_overrides or {}).items():
            identity = parse_provider_identity(key)
            current = table.get(identity)
            if current is None or not current.uses_oauth:
                continue
            table[identity] = ProviderDescriptor(
                identity=current.identity,
                authorization_url=url,
                uses_oauth=current.uses_oauth,
                display_label_key=current.display_label_key,
                display_name=current.display_name,
                token_route=current.token_route,
                account_name_path=current.account_name_path,
            )
        self._table = table

    def resolve(self, identity: ProviderIdentity) -> ProviderDescriptor:
        """識別子から記述を引く

        Raises:
            UnknownProviderException: テーブル外の識別子が指定された場合
        """
        descriptor = self._table.get(identity) if isinstance(identity, ProviderIdentity) else None
        if descriptor is None:
            raise UnknownProviderException(create_unknown_provider_error(identity))
        return descriptor

    def uses_oauth(self, identity: ProviderIdentity) -> bool:
        return self.resolve(identity).uses_oauth

    def oauth_providers(self) -> List[ProviderIdentity]:
        """OAuthハンドシェイクを伴うプロバイダ一覧"""
        return [identity for identity, d in self._table.items() if d.uses_oauth]

    def display_label_key(self, identity: ProviderIdentity) -> str:
        return self.resolve(identity).display_label_key


def describe_source(registry: ProviderRegistry, scm_type: Optional[str]) -> str:
    """現在の scmType をソース表示用の翻訳キーに変換する

    Bitbucket の Git/Hg はどちらも Bitbucket として扱う。
    """
    return registry.display_label_key(parse_provider_identity(scm_type))
