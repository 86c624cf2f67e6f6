"""
anonymous MACI: 익명 반담합(anti-collusion) 투표 프로토콜 코어
================================================================

  maci.crypto       Baby Jubjub, Poseidon, 키/서명/암호화 기본 도구
  maci.tree         5진 머클 트리
  maci.state        상태 리프와 트리 구성
  maci.command      명령 패킹/서명/암호화
  maci.chain        해시 체인으로 연결된 메시지 큐
  maci.round        원장(ledger) 측 기간(period) 상태 기계
  maci.coordinator  오프체인 코디네이터 배치 처리
"""
