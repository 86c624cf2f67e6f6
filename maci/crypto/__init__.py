"""암호 기본 도구: 유한체, Baby Jubjub 곡선, Poseidon 해시, 키, 서명, 암호화."""
